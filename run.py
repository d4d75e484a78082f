"""
Development Runner
==================
Runs the folding demo straight from a source checkout.

Why is this file needed?
------------------------
1. It sits outside the 'src' package so the demo can be started without
   installing the project first.
2. It puts 'src' on 'sys.path' so that 'from paperfold...' resolves to the
   checkout rather than to an installed copy.

Usage:
    $ python run.py
"""
import sys
import os

current_dir: str = os.path.dirname(os.path.abspath(__file__))
src_path: str = os.path.join(current_dir, 'src')
sys.path.insert(0, src_path)

from paperfold.__main__ import main

if __name__ == "__main__":
    main()
