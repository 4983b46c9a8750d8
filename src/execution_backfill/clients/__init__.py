"""HTTP clients: proxy provisioning and the rate-limited client pool."""
