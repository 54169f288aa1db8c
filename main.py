#!/usr/bin/env python3
"""
Entry point for the appimage-setup command.
Run this script with `python3 main.py [options] [AppImage ...]` from the project root.
"""
import os, sys
# Ensure project root is in sys.path for package imports
sys.path.insert(0, os.path.dirname(__file__))
from appimagesetup.main import main

if __name__ == "__main__":
    main()
