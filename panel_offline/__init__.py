"""1Panel offline bundles: build them, and upgrade hosts from them.

Core design goals:
- Multi-source artifact resolution with ordered fallbacks
- Verified, reusable download cache
- Idempotent, anchor-checked patching of install.sh
- Best-effort builds across architectures
- In-place host upgrades with rollback
"""

__all__ = []
