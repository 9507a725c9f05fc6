"""Pure domain layer: value types, DTOs, workflows and formulas.  Zero I/O."""
