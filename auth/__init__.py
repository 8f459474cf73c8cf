"""auth/ -- Signup, OTP verification and session package for OtpGate.

Layer rule: auth/ imports only stdlib + third-party libraries, plus core/ for
the Settings type. It does NOT import from api/. Configuration values reach
the stores, mailer and session issuer through constructors built in
api/main.py and main.py. api/ imports from auth/, not the other way around.
"""
