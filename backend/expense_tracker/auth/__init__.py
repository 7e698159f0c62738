"""
Authentication package.

    tokens.py        — credential issuance and verification (PyJWT)
    passwords.py     — bcrypt password hashing
    identity.py      — Identity value, user store contract, identity resolver
    dependencies.py  — FastAPI dependencies: mandatory, optional, require-identity
"""
