"""Processing nodes: discovery, analysis, classification and fusion."""
