"""This folder contains the extensions that come with Bramble.

Extensions in `<config dir>/extensions`, the bootstrapped manager folder and
installed extension sources are searched before this folder.
"""
