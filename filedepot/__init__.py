"""
File depot: a small file-sharing web service.

Visitors browse and download files; administrators upload files, tag them
with categories and manage the catalog. Storage, the relational store and
sessions sit behind client interfaces with in-memory doubles for tests.
"""
