"""
Account authentication module.

Token signing and verification, the account use cases under ``services``,
and the FastAPI surface: ``app.create_app`` builds the application and
``endpoints.router`` can be mounted into an existing one.
"""
