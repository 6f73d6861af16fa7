"""
AURA backend package.

Service functions for profiles, posts, follows, likes, comments, stories,
direct messages and notifications, plus the client interfaces they use to
reach the document store, auth service, object storage and push gateway.
"""
