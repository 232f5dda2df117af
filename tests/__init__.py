"""crm-pilot Test Suite.

Test organization mirrors crmpilot/ structure:
    tests/
    ├── conftest.py          # Shared fixtures
    ├── test_core/           # Config, logging, exceptions, services
    ├── test_db/             # Database tests
    ├── test_integrations/   # Outlook and offline provider tests
    ├── test_engine/         # Scoring, slots, program, facade
    └── test_actions/        # Registry, dispatcher, operations

Markers:
    - @pytest.mark.slow: Tests taking > 1 second
    - @pytest.mark.database: Tests requiring database
    - @pytest.mark.asyncio: Coroutine tests (pytest-asyncio)
"""
