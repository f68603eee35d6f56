"""
rental_batch -- Batch Invoice Generator.

Produces one issued rent invoice per active lease for a billing period.
Each lease is its own unit of work: one transaction, the lease row locked
for its duration, failures caught and reported per lease.

Architecture:
    rental_batch/ is a top-level package.  Nothing in rental_kernel/ or
    rental_modules/ imports from rental_batch.
"""
