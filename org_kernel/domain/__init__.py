"""Pure domain layer: value objects, enums and algorithms. ZERO I/O."""
