"""
Expense Tracker Backend — Middleware Package
=============================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters!):
    Request → [CORS] → [Rate Limit] → [Request ID] → [Logging] → Route Handler

    1. CORS outermost: preflights are answered and 429 responses still
       carry CORS headers, so browsers can read them
    2. Rate Limit: throttled requests never reach identity resolution
       or the database
    3. Request ID: correlation ID for logging and tracing
    4. Logging: request details with the generated request ID

    Responses travel the chain in reverse, so the rate-limit headers are
    added last and the logging middleware sees the final status code.
"""
