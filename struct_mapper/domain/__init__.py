"""Pure domain layer: names, shapes, coercion and per-call types. ZERO I/O."""
