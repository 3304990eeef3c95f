from io import BytesIO

PDF = b'%PDF-1.4\n%test\n'


def _upload(client, name='simja.pdf', category='document', data=PDF):
    return client.post('/api/upload', data={
        'category': category,
        'file': (BytesIO(data), name),
    }, content_type='multipart/form-data')


def test_upload_and_download(app, login_as):
    vendor = login_as('vendor')

    resp = _upload(vendor, name='surat izin kerja.pdf')
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['original_name'] == 'surat izin kerja.pdf'
    assert body['filename'].endswith('_surat_izin_kerja.pdf')
    assert body['size'] == len(PDF)
    assert body['url'].startswith('/api/files/')
    assert '/document/' in body['url']

    resp = vendor.get(body['url'])
    assert resp.status_code == 200
    assert resp.data == PDF


def test_upload_rejects_extension_for_category(login_as):
    vendor = login_as('vendor')

    resp = _upload(vendor, name='foto.pdf', category='worker-photo')
    assert resp.status_code == 400
    assert '.jpg' in resp.get_json()['error']

    assert _upload(vendor, name='skrip.exe').status_code == 400
    assert _upload(vendor, name='pass.png', category='hsse-pass', data=b'\x89PNG').status_code == 201
    assert _upload(vendor, category='lainnya').status_code == 400


def test_upload_requires_file(login_as):
    resp = login_as('vendor').post('/api/upload', data={'category': 'document'},
                                   content_type='multipart/form-data')
    assert resp.status_code == 400


def test_upload_requires_login(client):
    assert _upload(client).status_code == 401


def test_file_access_rules(login_as):
    url = _upload(login_as('vendor')).get_json()['url']

    assert login_as('vendor2').get(url).status_code == 403
    assert login_as('visitor').get(url).status_code == 403
    for role in ('reviewer', 'approver', 'verifier', 'admin'):
        assert login_as(role).get(url).status_code == 200, role

    assert login_as('vendor').get(url.replace('.pdf', '-hilang.pdf')).status_code == 404
