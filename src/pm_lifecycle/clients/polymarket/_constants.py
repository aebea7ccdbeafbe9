"""HTTP constants shared by the Polymarket API clients."""

HTTP_BAD_REQUEST = 400
