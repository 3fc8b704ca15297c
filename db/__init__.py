"""db/ -- Database engine, schema migrations, and storage failure classification.

Layer rule: db/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or auth/.
"""
