"""Direct messaging between marketplace users."""
