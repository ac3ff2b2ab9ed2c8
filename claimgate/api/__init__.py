# Claim API: routes and exception handlers
