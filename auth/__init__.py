"""auth/ -- Sessions, brute-force guard and access decisions for piccolo-share.

Layer rule: auth/ imports only from core/, stdlib and third-party libraries.
It does NOT import from api/ or web/.
api/ and web/ import from auth/, not the other way around.
"""
