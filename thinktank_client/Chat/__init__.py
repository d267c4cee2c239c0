# thinktank_client/Chat/__init__.py
