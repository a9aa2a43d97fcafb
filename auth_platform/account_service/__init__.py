"""
account_service package

Core backend of the account authentication service:

- FastAPI application and HTTP error rendering (`main.py`)
- Password hashing and JWT issuance/verification (`auth.py`)
- Account use-cases: login, signup, refresh, user update, password reset (`accounts.py`)
- SQLAlchemy models, session handling and the user directory (`models.py`, `db.py`, `directory.py`)
- Password reset email delivery (`notifications.py`)
- Pydantic request/response schemas and settings (`schemas.py`, `config.py`)
"""
