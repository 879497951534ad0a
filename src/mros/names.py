""" Handling of hierarchical names, as used for nodes, topics, and services.
    A name looks like a filesystem path: '/a/b/c'. A name without a leading
    slash is relative, and is resolved against the namespace of the node
    that uses it.
"""

from .errors import ConfigurationError

separator = '/'
root = '/'


def canonical(name):
    """ Return the canonical form of *name*: surrounding whitespace removed,
        repeated separators collapsed, and no trailing separator (unless the
        name is the root). A :class:`ConfigurationError` is raised if the
        name is None, empty, or blank.
    """

    if name is None:
        raise ConfigurationError('a name is required')

    name = str(name)
    name = name.strip()

    if name == '':
        raise ConfigurationError('a name cannot be blank')

    for character in name:
        if character.isspace():
            raise ConfigurationError('whitespace is not allowed in a name: ' + repr(name))

    leading = name.startswith(separator)
    pieces = [piece for piece in name.split(separator) if piece != '']

    if len(pieces) == 0:
        return root

    name = separator.join(pieces)

    if leading:
        name = separator + name

    return name


def is_global(name):
    return canonical(name).startswith(separator)


def namespace(name):
    """ Return the namespace containing the global *name*; the namespace
        of '/a/b/c' is '/a/b', and the namespace of '/a' is the root.
    """

    name = canonical(name)

    if name == root:
        return root

    parent, _leaf = name.rsplit(separator, 1)

    if parent == '':
        return root

    return parent


def join(parent, child):
    parent = canonical(parent)
    child = canonical(child)

    if parent == root:
        return canonical(separator + child)

    return canonical(parent + separator + child)


def resolve(name, node_name=None):
    """ Resolve *name* to a global name. Relative names are placed in the
        namespace of *node_name*; global names are returned as-is, in their
        canonical form.
    """

    name = canonical(name)

    if name.startswith(separator):
        return name

    if node_name is None:
        return join(root, name)

    return join(namespace(node_name), name)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
