# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Run blocking ``zope.interface`` providers off the reactor thread.

The volume lifecycle talks to the DigitalOcean API, the droplet metadata
service and ``mount(8)``, all of which block.  ``auto_threaded`` lets the
Docker plugin endpoints call it and get ``Deferred`` results back.
"""

from twisted.internet.threads import deferToThreadPool

from zope.interface.interface import Method


def _deferred_call(name, reactor_attribute, provider_attribute,
                   threadpool_attribute):
    """
    :return: A method which looks up ``name`` on the provider held by the
        instance and runs it in the instance's threadpool, returning a
        ``Deferred`` that fires with its result on the reactor thread.
    """
    def call(self, *args, **kwargs):
        blocking = getattr(getattr(self, provider_attribute), name)
        return deferToThreadPool(
            getattr(self, reactor_attribute),
            getattr(self, threadpool_attribute),
            blocking, *args, **kwargs
        )
    call.__name__ = name
    return call


def auto_threaded(interface, reactor, sync, threadpool):
    """
    Create a class decorator adding a ``Deferred``-returning version of each
    method of ``interface``.

    :param zope.interface.InterfaceClass interface: The interface whose
        methods are forwarded.  Every name it declares must be a method.
    :param str reactor: The attribute of decorated instances holding the
        reactor results are delivered on.
    :param str sync: The attribute holding the blocking provider of
        ``interface``.
    :param str threadpool: The attribute holding the
        ``twisted.python.threadpool.ThreadPool`` calls are run in.

    :raise TypeError: If ``interface`` declares non-method attributes.

    :return: The class decorator.
    """
    names = list(interface.names())
    for name in names:
        if not isinstance(interface[name], Method):
            raise TypeError(
                "auto_threaded cannot forward the attribute {!r} of "
                "{}".format(name, interface.__name__)
            )

    def decorate(cls):
        for name in names:
            setattr(cls, name,
                    _deferred_call(name, reactor, sync, threadpool))
        return cls
    return decorate
