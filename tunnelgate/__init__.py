"""
Tunnelgate - Challenge-Response Authentication and Tunnel Registry

Authenticates provisioned clients by having them sign a one-time challenge
with their RSA private key, then issues bearer credentials that gate a
small registry of client tunnel URLs.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- storage: Per-key serialized persistence over Redis
- challenge: Single-use, time-bounded challenges
- auth: Signature verification, credential issuing, protocol orchestration
- tunnel: Client tunnel URL registry
- webhook: Repository metadata collaborator client
- api: HTTP request/response models
- config: Runtime settings
"""

__version__ = "1.0.0"
