"""DOM inspection: scan state, selector-driven scanner and mutation batching."""
