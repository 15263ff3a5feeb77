"""Record synthesis: field rules, picklist decoding, references, and value generation."""
