"""Restaurant AI workforce: tenant-scoped API and event-driven agents."""
