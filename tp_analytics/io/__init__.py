"""Loading activity files and workout metadata."""
