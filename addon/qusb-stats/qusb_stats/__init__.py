"""usb2snes stat tracker: polls SNES memory over QUsb2Snes and publishes values to MQTT."""
