"""
Customer profiles module.

- Customers CRUD (list + create + detail/update/delete)
- Filtered, paginated listing (search / status / province)
- Server-generated customer and account numbers
"""
