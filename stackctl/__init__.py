"""stackctl — environment orchestration for a compose-managed application stack."""

__version__ = "0.1.0"
