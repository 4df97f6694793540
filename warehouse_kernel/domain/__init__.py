"""Pure domain layer: values, DTOs, workflows, reconciliation, clock."""
