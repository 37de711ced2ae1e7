"""API subpackage for the disaster records backend.

Submodules:
    - disasters: REST router mounted at ``/api/v1/disasters``.
    - graphql_schema: Strawberry schema and router mounted at ``/graphql``.
    - graphql_types: GraphQL object and input types.

Both surfaces resolve their repository through a module-level
``_get_repo`` dependency so tests can swap in the in-memory backend.
"""
