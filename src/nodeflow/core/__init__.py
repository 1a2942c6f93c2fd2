"""Models, interfaces, result types and errors shared by every layer."""
