import click

from simlok import db
from simlok.models import User, Submission, Role, VerificationStatus
from simlok.sessions import cleanup_expired_sessions
from simlok.utils import utcnow, local_today
from simlok.workflow import next_simlok_number


def register_commands(app):

    @app.cli.command('cleanup-sessions')
    def cleanup_sessions():
        """Hapus sesi yang sudah kedaluwarsa."""
        count = cleanup_expired_sessions()
        click.echo(f"{count} sesi kedaluwarsa dihapus.")

    @app.cli.command('create-user')
    @click.argument('email')
    @click.option('--role', type=click.Choice([r.value for r in Role]), default=Role.SUPER_ADMIN.value)
    @click.option('--name', 'officer_name', required=True)
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option('--vendor-name', default=None)
    @click.option('--position', default=None)
    def create_user(email, role, officer_name, password, vendor_name, position):
        """Buat user yang langsung terverifikasi."""
        email = email.lower()
        if User.query.filter_by(email=email).first():
            raise click.ClickException(f"Email {email} sudah digunakan.")
        if role == Role.VENDOR.value and not vendor_name:
            raise click.ClickException("--vendor-name wajib untuk role VENDOR.")

        user = User(
            email=email,
            officer_name=officer_name,
            vendor_name=vendor_name,
            position=position,
            role=Role(role),
            verification_status=VerificationStatus.VERIFIED,
            verified_at=utcnow(),
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        click.echo(f"User {email} ({role}) dibuat dengan id {user.id}.")

    @app.cli.command('simlok-sequence')
    @click.option('--year', type=int, default=None)
    def simlok_sequence(year):
        """Tampilkan nomor SIMLOK terakhir dan berikutnya."""
        year = year or local_today().year
        numbers = [n for (n,) in db.session.query(Submission.simlok_number)
                   .filter(Submission.simlok_number.like(f'{year}/%'))]
        last = max(numbers, key=lambda n: int(n.split('/')[1]) if n.split('/')[1].isdigit() else 0,
                   default=None)
        click.echo(f"Terakhir : {last or '-'}")
        click.echo(f"Berikutnya: {next_simlok_number(year)}")
