"""crm-pilot source package.

Decision-support engine embedded in a CRM: scores accounts, finds
meeting slots, builds the daily work program and executes named
operations on behalf of a conversational front end.

Layers:
    - core: Configuration, logging, exceptions, service registry
    - db: SQLite store, models
    - integrations: Calendar and mail provider (Microsoft Graph)
    - engine: Scoring, slot finding, daily program, data access facade
    - actions: Named operation registry and dispatcher
"""

__version__ = "0.1.0"
