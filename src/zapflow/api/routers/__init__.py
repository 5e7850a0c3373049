"""API routers: inbound hooks, cron-driven workers, health."""
