"""MemGraph: multi-tenant memory and knowledge-graph engine."""
