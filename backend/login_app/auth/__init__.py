"""Log In screen module (username/password + Sign in with Apple).

Both flows end in the same place: a session handed to the home screen, or a
one-button message dialog.

Components:
    - LogInController: credential and federated flows, in-flight guard.
    - ParseIdentityService: Parse Server REST client (login, Apple authData, become).
    - AppleWebAuthorizationBroker: web Sign in with Apple authorization.
    - WebLogInScreen: HTTP rendition of the screen (dialog, router, anchor).
"""
