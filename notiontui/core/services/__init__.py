"""Application services (use cases) built on the resilient data-access layer."""
