"""
API package for the auth starter service.

Modules:
- config: environment-backed AppConfig and the Postgres DSN
- db: PostgreSQL connection pool + query helpers
- auth_store: user/session storage providers (postgresql, memory)
- auth_utils: password hashing, session tokens and the auth guard
- auth_routes: /auth endpoints for the email/password strategy
- routes: root greeting and health check
- errors: global exception filter
- schemas: Pydantic models for the REST API
- main: app factory and process bootstrap
"""
