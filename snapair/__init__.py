"""MSP and Tello-style message bridging between UDP, a Bluetooth-style link and a serial port."""

__version__ = "0.1.0"

__all__ = ["__version__"]