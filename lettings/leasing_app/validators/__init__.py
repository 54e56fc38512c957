from .contracts import validate_contract_data  # noqa: F401
