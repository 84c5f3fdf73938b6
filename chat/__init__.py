"""chat/ -- Remote chat identity synchronization for ChatLink.

Mirrors each local user into the remote messaging platform (ConnectyCube)
and keeps the two records from diverging.

Module map (leaves first):
  crypto.py      -- CredentialCodec: encrypts the remote password at rest
  gateway.py     -- RemoteSessionGateway: one scoped session per remote call
  operations.py  -- signup / delete / update email / dialog / push
  sync.py        -- SyncOrchestrator: the facade api/ calls

Layer rule: chat/ may import from core/ and auth/, never from api/.
"""
