"""
Installer components for Raspberry Config.
Each module is one provisioning step run from the pi-config CLI or the
full installer.

Modules:
- init_setup: hostname, password, WiFi and repository clone
- essentials: base packages, git defaults, pi-config.conf
- theme: wallpaper and splash video
- x735: X735 power board services
- gps_utils: gpsd configuration, NMEA checks, diagnostics
- gps_install / gps_test / gps_uninstall: GPSBerry tools
"""
