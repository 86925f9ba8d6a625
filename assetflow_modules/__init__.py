"""
AssetFlow Modules.

Thin orchestration layers over the kernel, engines and services.
Each module contains:
- Domain models (the nouns)
- ORM models (persistence)
- Workflows (state machines and guards)
- Selectors (read queries)
- A service facade (the public entry point)

Modules:
- Assets: registration, deployment approval, returns, retirement,
  disposal, usage and depreciation read models
"""
