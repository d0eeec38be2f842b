"""Meeting rooms: registry, janitor, join validation and the room REST API."""
