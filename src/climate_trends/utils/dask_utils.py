import logging
from contextlib import contextmanager

import dask
from dask.distributed import Client, get_client

logger = logging.getLogger(__name__)


@contextmanager
def managed_dask_client(**kwargs):
    """
    Distributed client for one trend fit, scoped to a ``with`` block.

    A client already running in the session is reused and left open. Otherwise
    one is started from ``kwargs`` (e.g. ``n_workers``, ``processes``) and
    closed when the block exits, also when the fit raises.

    Yields
    ------
    dask.distributed.Client
    """
    owned = False
    try:
        client = get_client()
        logger.info("Fitting on the running dask client %s", client)
    except ValueError:
        try:
            client = Client(**kwargs)
        except Exception as e:
            logger.error("Could not start a dask client with %s: %s", kwargs, e)
            raise
        owned = True
        logger.info("Started dask client %s for the fit", client)

    try:
        yield client
    finally:
        if owned:
            try:
                client.close()
            except Exception as e:
                logger.warning("Error closing dask client: %s", e)
            else:
                logger.info("Closed dask client %s", client)


@contextmanager
def compute_context(n_workers=None, client_kwargs=None):
    """
    Scope in which dask graphs of the trend computation are evaluated.

    With ``client_kwargs`` the work runs on a distributed client managed by
    :func:`managed_dask_client`. Otherwise dask's threaded scheduler is used,
    with ``n_workers`` threads if given.
    """
    if client_kwargs is not None:
        with managed_dask_client(**client_kwargs) as client:
            yield client
    else:
        settings = {'scheduler': 'threads'}
        if n_workers is not None:
            settings['num_workers'] = int(n_workers)
        with dask.config.set(**settings):
            yield None


__all__ = ['managed_dask_client', 'compute_context']
