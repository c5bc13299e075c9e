"""
PayMcp Client

This package implements the client half of PayMcp: an HTTP fetch wrapper that answers OAuth and
payment challenges on behalf of an account.

Key Components:
- oauth.py: OAuthClient, authenticated fetch with challenge detection, PKCE authorization,
  callback handling and refresh
- fetcher.py: PayMcpFetcher, composes OAuthClient with the payment challenge overlay
- types.py: PaymentMaker interface and the ProspectivePayment passed to approval callbacks
- payment_maker.py: JwkPaymentMaker, signs PayMcp tokens with an Ed25519 key

The authorization code flow is completed without a browser: the payment maker signs a token
binding the PKCE code_challenge, the authorization endpoint answers with the redirect, and the
client exchanges the code itself.
"""
