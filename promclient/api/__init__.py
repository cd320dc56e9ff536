"""HTTP client, query result model and v1 endpoint bindings for a Prometheus server."""