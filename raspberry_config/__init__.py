"""
Raspberry Config
Sequential provisioning tools for a Raspberry Pi car/head-unit build.

Components:
- init: hostname, password, WiFi and configuration repository
- essentials: base packages, git identity, pi-config.conf
- theme: desktop wallpaper and OpenAuto Pro splash video
- x735: GeekWorm X735 fan and safe-shutdown services
- gps: GPSBerry install, test, management and uninstall
"""

__version__ = "1.2.0"
__author__ = "Raspberry Config Contributors"
