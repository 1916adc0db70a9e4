"""Client-side posts browser: cache, API client, view controller and dialog."""
