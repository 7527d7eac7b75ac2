"""
Storage — relational persistence of documents, chunks, chats and messages,
plus the on-disk store for uploaded bytes.
"""
