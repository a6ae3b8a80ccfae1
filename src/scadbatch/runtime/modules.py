"""
Built-in modules: primitives, transforms, booleans and control flow.

Each builtin receives a :class:`ModuleCall` describing one instantiation
and returns the index of the node it created, or None when it produces
nothing.
"""

import math
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
from matplotlib import colors as mcolors

from ..lang.ast import ModuleInstantiation
from ..lang.dumper import format_value
from ..nodes import (
    Node, GroupNode, CsgNode, TransformNode, ColorNode, PrimitiveNode,
    LinearExtrudeNode, RotateExtrudeNode, ImportNode, RenderNode, HullNode,
    FragmentParams,
)
from ..printutils import print_message, print_warning, print_deprecation
from .builtins import sin_degrees, cos_degrees
from .context import Context
from .values import Range, is_number, is_vector, to_bool, to_int, to_number, to_vector


@dataclass
class ModuleCall:
    """One instantiation of a builtin module."""
    interpreter: Any
    inst: ModuleInstantiation
    ctx: Context            # Context the instantiation appears in
    child_ctx: Context      # Context its children are instantiated in
    # Evaluated (name, value) pairs in source order; empty for modules in
    # DEFERRED_ARGUMENTS, which evaluate their own arguments.
    arguments: List[Tuple[Optional[str], Any]] = field(default_factory=list)

    @property
    def positional(self) -> List[Any]:
        return [value for name, value in self.arguments if name is None]

    @property
    def named(self) -> Dict[str, Any]:
        return {name: value for name, value in self.arguments if name is not None}

    def bind(self, *names: str) -> Dict[str, Any]:
        """Map positional arguments onto ``names``; named arguments override."""
        bound = {name: None for name in names}
        for name, value in zip(names, self.positional):
            bound[name] = value
        for name in names:
            if name in self.named:
                bound[name] = self.named[name]
        return bound

    def lookup(self, name: str) -> Any:
        return self.child_ctx.lookup_variable(name, silent=True)

    def fragments(self) -> FragmentParams:
        return FragmentParams(
            fn=to_number(self.lookup('$fn'), 0.0),
            fa=to_number(self.lookup('$fa'), 12.0),
            fs=to_number(self.lookup('$fs'), 2.0),
        )

    def add_node(self, node: Node) -> int:
        return self.interpreter.tree.add(node)

    def add_with_children(self, node: Node) -> int:
        """Add ``node`` then instantiate the children below it."""
        index = self.add_node(node)
        node.children = self.interpreter.instantiate_block(self.inst.children, self.child_ctx)
        return index


BuiltinModule = Callable[[ModuleCall], Optional[int]]

BUILTIN_MODULES: Dict[str, BuiltinModule] = {}

# Modules whose arguments bind loop or local variables
DEFERRED_ARGUMENTS = {'for', 'intersection_for', 'let'}


def builtin_module(*names: str):
    """Register the decorated function under each of ``names``."""

    def decorator(func: BuiltinModule) -> BuiltinModule:
        for name in names:
            BUILTIN_MODULES[name] = func
        return func
    return decorator


def _is_true(value: Any) -> bool:
    return isinstance(value, bool) and value


def _radius(call: ModuleCall, r_name: str, d_name: str, default: Optional[float]) -> Optional[float]:
    """Radius from ``r_name`` or half of ``d_name``."""
    d = call.named.get(d_name)
    if is_number(d):
        return float(d) / 2.0
    r = call.named.get(r_name)
    if is_number(r):
        return float(r)
    return default


# =============================================================================
# Primitives
# =============================================================================

@builtin_module('cube')
def _cube(call: ModuleCall) -> int:
    args = call.bind('size', 'center')
    size = [1.0, 1.0, 1.0]
    if is_number(args['size']):
        size = [float(args['size'])] * 3
    elif is_vector(args['size']):
        size = to_vector(args['size'], 3) or size
    node = PrimitiveNode(kind='cube', params={'size': size, 'center': _is_true(args['center'])},
                         fragments=call.fragments())
    return call.add_node(node)


@builtin_module('sphere')
def _sphere(call: ModuleCall) -> int:
    args = call.bind('r')
    r = to_number(args['r'], 1.0)
    r = _radius(call, 'r', 'd', r)
    node = PrimitiveNode(kind='sphere', params={'r': r}, fragments=call.fragments())
    return call.add_node(node)


@builtin_module('cylinder')
def _cylinder(call: ModuleCall) -> int:
    args = call.bind('h', 'r1', 'r2', 'center')
    h = to_number(args['h'], 1.0)
    r = _radius(call, 'r', 'd', None)
    r1 = to_number(args['r1'], 1.0 if r is None else r)
    r2 = to_number(args['r2'], 1.0 if r is None else r)
    r1 = _radius(call, 'r1', 'd1', r1)
    r2 = _radius(call, 'r2', 'd2', r2)
    params = {'h': h, 'r1': r1, 'r2': r2, 'center': _is_true(args['center'])}
    node = PrimitiveNode(kind='cylinder', params=params, fragments=call.fragments())
    return call.add_node(node)


@builtin_module('polyhedron')
def _polyhedron(call: ModuleCall) -> int:
    args = call.bind('points', 'faces', 'convexity')
    faces = args['faces']
    if faces is None and 'triangles' in call.named:
        print_deprecation("polyhedron(triangles=[]) will be removed in future releases. "
                          "Use polyhedron(faces=[]) instead.")
        faces = call.named['triangles']
    params = {
        'points': args['points'] if is_vector(args['points']) else [],
        'faces': faces if is_vector(faces) else [],
        'convexity': to_int(args['convexity'], 1),
    }
    node = PrimitiveNode(kind='polyhedron', params=params, fragments=call.fragments())
    return call.add_node(node)


@builtin_module('square')
def _square(call: ModuleCall) -> int:
    args = call.bind('size', 'center')
    size = [1.0, 1.0]
    if is_number(args['size']):
        size = [float(args['size'])] * 2
    elif is_vector(args['size']):
        size = to_vector(args['size'], 2) or size
    node = PrimitiveNode(kind='square', params={'size': size, 'center': _is_true(args['center'])},
                         fragments=call.fragments())
    return call.add_node(node)


@builtin_module('circle')
def _circle(call: ModuleCall) -> int:
    args = call.bind('r')
    r = _radius(call, 'r', 'd', to_number(args['r'], 1.0))
    node = PrimitiveNode(kind='circle', params={'r': r}, fragments=call.fragments())
    return call.add_node(node)


@builtin_module('polygon')
def _polygon(call: ModuleCall) -> int:
    args = call.bind('points', 'paths', 'convexity')
    params = {
        'points': args['points'] if is_vector(args['points']) else [],
        'paths': args['paths'] if is_vector(args['paths']) else None,
        'convexity': to_int(args['convexity'], 1),
    }
    node = PrimitiveNode(kind='polygon', params=params, fragments=call.fragments())
    return call.add_node(node)


@builtin_module('import')
def _import(call: ModuleCall) -> Optional[int]:
    args = call.bind('file', 'layer', 'convexity', 'origin', 'scale')
    filename = args['file']
    if not isinstance(filename, str) or not filename:
        print_warning("import() requires a file name.")
        return None
    if not os.path.isabs(filename):
        filename = os.path.join(call.ctx.document_path or os.getcwd(), filename)
    filename = os.path.normpath(filename)
    call.interpreter.register_dependency(filename)
    origin = to_vector(args['origin'], 2) if is_vector(args['origin']) else [0.0, 0.0]
    node = ImportNode(
        filename=filename,
        layer=args['layer'] if isinstance(args['layer'], str) else "",
        origin=tuple(origin),
        scale=to_number(args['scale'], 1.0),
        convexity=to_int(args['convexity'], 1),
        fragments=call.fragments(),
    )
    return call.add_node(node)


# =============================================================================
# Transforms
# =============================================================================

def translation_matrix(v: List[float]) -> np.ndarray:
    m = np.eye(4)
    m[:3, 3] = v
    return m


def scale_matrix(v: List[float]) -> np.ndarray:
    return np.diag([v[0], v[1], v[2], 1.0])


def _axis_rotation(axis: int, angle: float) -> np.ndarray:
    c, s = cos_degrees(angle), sin_degrees(angle)
    m = np.eye(4)
    i, j = [(1, 2), (2, 0), (0, 1)][axis]
    m[i, i] = c
    m[i, j] = -s
    m[j, i] = s
    m[j, j] = c
    return m


def rotation_matrix(a: Any, v: Any = None) -> np.ndarray:
    """rotate(a=[x, y, z]) or rotate(a=angle, v=axis); angles in degrees."""
    if is_vector(a):
        angles = to_vector(a, 3) or [0.0, 0.0, 0.0]
        return _axis_rotation(2, angles[2]) @ _axis_rotation(1, angles[1]) @ _axis_rotation(0, angles[0])
    angle = to_number(a, 0.0)
    axis = to_vector(v, 3) if is_vector(v) else None
    if axis is None or not any(axis):
        return _axis_rotation(2, angle)
    u = np.array(axis) / np.linalg.norm(axis)
    c, s = cos_degrees(angle), sin_degrees(angle)
    cross = np.array([[0, -u[2], u[1]], [u[2], 0, -u[0]], [-u[1], u[0], 0]])
    m = np.eye(4)
    m[:3, :3] = c * np.eye(3) + s * cross + (1 - c) * np.outer(u, u)
    return m


def mirror_matrix(v: List[float]) -> np.ndarray:
    n = np.array(v, dtype=float)
    length = float(n @ n)
    m = np.eye(4)
    if length > 0:
        m[:3, :3] -= 2.0 * np.outer(n, n) / length
    return m


def _transform(call: ModuleCall, matrix: np.ndarray) -> int:
    return call.add_with_children(TransformNode(matrix=matrix))


@builtin_module('translate')
def _translate(call: ModuleCall) -> int:
    v = call.bind('v')['v']
    vec = to_vector(v, 3) if is_vector(v) else None
    return _transform(call, translation_matrix(vec or [0.0, 0.0, 0.0]))


@builtin_module('rotate')
def _rotate(call: ModuleCall) -> int:
    args = call.bind('a', 'v')
    return _transform(call, rotation_matrix(args['a'], args['v']))


@builtin_module('scale')
def _scale(call: ModuleCall) -> int:
    v = call.bind('v')['v']
    if is_number(v):
        vec = [float(v)] * 3
    else:
        vec = (to_vector(v, 3, default=1.0) if is_vector(v) else None) or [1.0, 1.0, 1.0]
    return _transform(call, scale_matrix(vec))


@builtin_module('mirror')
def _mirror(call: ModuleCall) -> int:
    v = call.bind('v')['v']
    vec = to_vector(v, 3) if is_vector(v) else None
    return _transform(call, mirror_matrix(vec or [0.0, 0.0, 0.0]))


@builtin_module('multmatrix')
def _multmatrix(call: ModuleCall) -> int:
    m = call.bind('m')['m']
    matrix = np.eye(4)
    if is_vector(m):
        for i, row in enumerate(m[:4]):
            values = to_vector(row, 4) if is_vector(row) else None
            if values is not None:
                matrix[i, :len(row[:4])] = values[:len(row[:4])]
    return _transform(call, matrix)


@builtin_module('color')
def _color(call: ModuleCall) -> int:
    args = call.bind('c', 'alpha')
    rgba = [-1.0, -1.0, -1.0, 1.0]
    c = args['c']
    if is_vector(c):
        values = to_vector(c, 4, default=1.0)
        if values is not None and len(c) >= 3:
            rgba = values
    elif isinstance(c, str):
        try:
            rgba = list(mcolors.to_rgba(c.strip().lower()))
        except ValueError:
            print_warning(f"Color name \"{c}\" unknown.")
    if is_number(args['alpha']):
        rgba[3] = float(args['alpha'])
    return call.add_with_children(ColorNode(color=tuple(rgba)))


# =============================================================================
# Booleans and other operations
# =============================================================================

@builtin_module('union', 'difference', 'intersection')
def _csg(call: ModuleCall) -> int:
    return call.add_with_children(CsgNode(operation=call.inst.name))


@builtin_module('group')
def _group(call: ModuleCall) -> int:
    return call.add_with_children(GroupNode())


@builtin_module('hull')
def _hull(call: ModuleCall) -> int:
    return call.add_with_children(HullNode())


@builtin_module('render')
def _render(call: ModuleCall) -> int:
    convexity = to_int(call.bind('convexity')['convexity'], 1)
    return call.add_with_children(RenderNode(convexity=convexity))


@builtin_module('linear_extrude')
def _linear_extrude(call: ModuleCall) -> int:
    args = call.bind('height', 'center', 'convexity', 'twist', 'slices', 'scale')
    height = to_number(args['height'], 100.0)
    if height <= 0:
        height = 100.0
    twist = to_number(args['twist'], 0.0)
    fragments = call.fragments()
    if is_number(args['slices']):
        slices = max(1, int(args['slices']))
    elif twist != 0:
        if fragments.fn > 0:
            slices = max(1, math.ceil(abs(twist) / 360.0 * fragments.fn))
        else:
            slices = max(1, math.ceil(abs(twist) / max(fragments.fa, 0.01)))
    else:
        slices = 1
    scale = args['scale']
    if is_number(scale):
        scale_xy = (float(scale), float(scale))
    elif is_vector(scale):
        scale_xy = tuple(to_vector(scale, 2, default=1.0) or (1.0, 1.0))
    else:
        scale_xy = (1.0, 1.0)
    node = LinearExtrudeNode(
        height=height,
        center=_is_true(args['center']),
        convexity=to_int(args['convexity'], 1),
        twist=twist,
        slices=slices,
        scale=scale_xy,
        fragments=fragments,
    )
    return call.add_with_children(node)


@builtin_module('rotate_extrude')
def _rotate_extrude(call: ModuleCall) -> int:
    convexity = to_int(call.bind('convexity')['convexity'], 1)
    return call.add_with_children(RotateExtrudeNode(convexity=convexity,
                                                    fragments=call.fragments()))


# =============================================================================
# Control flow
# =============================================================================

def iterate_values(value: Any) -> List[Any]:
    """Values a for loop visits: range elements, vector elements or the value itself."""
    if isinstance(value, Range):
        return list(value)
    if is_vector(value):
        return list(value)
    if value is None:
        return []
    return [value]


def _loop_contexts(call: ModuleCall):
    """Yield one child context per combination of the loop variables."""
    assignments = [a for a in call.inst.arguments if a.name is not None]

    def recurse(ctx: Context, remaining):
        if not remaining:
            yield ctx
            return
        arg = remaining[0]
        for value in iterate_values(call.interpreter.evaluate(arg.value, ctx)):
            loop_ctx = Context(parent=ctx, name='for')
            loop_ctx.set_variable(arg.name, value)
            yield from recurse(loop_ctx, remaining[1:])

    if not assignments:
        return
    yield from recurse(call.child_ctx, assignments)


@builtin_module('for')
def _for(call: ModuleCall) -> int:
    node = GroupNode()
    index = call.add_node(node)
    for loop_ctx in _loop_contexts(call):
        node.children.extend(call.interpreter.instantiate_block(call.inst.children, loop_ctx))
    return index


@builtin_module('intersection_for')
def _intersection_for(call: ModuleCall) -> int:
    node = CsgNode(operation='intersection')
    index = call.add_node(node)
    for loop_ctx in _loop_contexts(call):
        group = GroupNode()
        node.children.append(call.add_node(group))
        group.children = call.interpreter.instantiate_block(call.inst.children, loop_ctx)
    return index


@builtin_module('echo')
def _echo(call: ModuleCall) -> int:
    parts = []
    for name, value in call.arguments:
        if name is None:
            parts.append(format_value(value))
        else:
            parts.append(f"{name} = {format_value(value)}")
    print_message("ECHO: " + ", ".join(parts))
    return call.add_with_children(GroupNode())


def _scoped_assignments(call: ModuleCall, sequential: bool) -> int:
    ctx = Context(parent=call.child_ctx, name=call.inst.name)
    if sequential:
        for arg in call.inst.arguments:
            if arg.name is not None:
                ctx.set_variable(arg.name, call.interpreter.evaluate(arg.value, ctx))
    else:
        for name, value in call.named.items():
            ctx.set_variable(name, value)
    node = GroupNode()
    index = call.add_node(node)
    node.children = call.interpreter.instantiate_block(call.inst.children, ctx)
    return index


@builtin_module('assign')
def _assign(call: ModuleCall) -> int:
    print_deprecation("assign() will be removed in future releases. "
                      "Use let() instead.")
    return _scoped_assignments(call, sequential=False)


@builtin_module('let')
def _let(call: ModuleCall) -> int:
    return _scoped_assignments(call, sequential=True)


@builtin_module('children')
def _children(call: ModuleCall) -> Optional[int]:
    return call.interpreter.instantiate_children(call)
