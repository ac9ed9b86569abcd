"""Background generation: staleness detection, run state, and orchestration."""
