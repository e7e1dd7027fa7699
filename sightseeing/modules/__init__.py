"""modules — Tooling, planning and optimization components."""
