"""Core logic of the admin console, independent of Flask.

Module Structure:
    - services/         : HTTP clients for identity, guardian and basic-io
    - tables.py         : Column config, filtering, sorting, table state
    - column_builders.py: Column factories (text, select, date, badges...)
    - crud.py           : Table CRUD helper over one REST collection
    - associations.py   : Many-to-many / one-to-many association management
    - reconcile.py      : Link diffing (user roles, role policies)
    - transfer.py       : Role export/import with policy links
    - schemas.py        : Form validation (pydantic)
    - validators.py     : Field validators shared by the schemas
    - session.py        : Login state kept in the Flask session

Usage Pattern:
    Import explicitly when needed:
        from admin_console.core.services import ServiceRegistry
        from admin_console.core.reconcile import sync_user_roles
        from admin_console.core.transfer import import_roles, parse_roles_file

    session.py is the only module here that needs a Flask request context.
"""
