"""auth/ -- Credential authentication and verification for CredGuard.

PasswordHasher, CredentialStore, AuthorizationResolver,
CredentialResetService and ConsistencyAuditor live here.

Layer rule: auth/ imports only core/, stdlib and third-party libraries.
It does NOT import from api/, main.py or tools/.
api/ and main.py import from auth/, not the other way around.
"""
