"""Table reservation availability and slot-capacity service."""
