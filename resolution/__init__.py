"""Entity resolution: free-text deal identity hints to canonical companies and contacts.

Modules, leaf-first:
- normalizer:   email validation, domain extraction, consumer-domain exclusion
- similarity:   swappable string similarity in [0, 1]
- matcher:      deterministic company lookup, exact/fuzzy contact lookup
- creator:      find-or-create and enrichment of companies and contacts
- orchestrator: batch driver, per-record durability, rollback-and-rerun
- review:       review queue listing and the human resolution action
- enforcer:     offline audit and the tighten-constraints gate
"""
