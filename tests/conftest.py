# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring,protected-access
# pylint: disable=unused-argument,too-few-public-methods,wrong-import-position,wrong-import-order
import os
import sys


ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
ADDON_DIR = os.path.join(ROOT_DIR, "addon", "qusb-stats")
if ADDON_DIR not in sys.path:
    sys.path.insert(0, ADDON_DIR)
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)
