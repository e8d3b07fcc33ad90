"""LAN file sharing service: upload, list, download and delete files with realtime notifications."""
