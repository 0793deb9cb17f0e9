"""Business engines for orders, auctions and reviews."""
