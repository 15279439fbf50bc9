"""Authentication: passwords, session tokens, verification codes, Google.

Learn: Three ways to prove who you are —
1. email + password → session token (only once the email is verified)
2. email + emailed code → verifies the email and returns a session token
3. Google profile → existing, linked, or newly created account → token

Every protected route then goes through the access guard in
dependencies.py, which turns the Bearer token back into an account.
"""
