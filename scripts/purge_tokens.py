"""Delete expired verification and password-reset tokens."""

from app import create_app
from services import tokens


def main() -> None:
    app = create_app()
    with app.app_context():
        removed = tokens.purge_expired()
        print(f"Removed {removed} expired token(s)")


if __name__ == "__main__":
    main()
