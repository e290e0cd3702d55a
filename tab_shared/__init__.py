"""
Shared infrastructure for the tab settlement backend.

Subpackages:
- config: settings, logging, constants
- infrastructure: database engine/session, correlation ids
- security: bearer-token auth context, rate limiting
- utils: exceptions, money helpers, API schemas
"""
