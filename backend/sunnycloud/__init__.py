"""SunnyCloud backend: file upload and sharing with signed capability links."""
