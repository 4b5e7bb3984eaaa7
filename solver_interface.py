import logging

import numpy as np
import gurobipy as gp
from gurobipy import GRB

from problem import ProblemData, row_bounds_from_sense

logger = logging.getLogger(__name__)

SENSE_CODES = {GRB.LESS_EQUAL: "L", GRB.GREATER_EQUAL: "G", GRB.EQUAL: "E"}


def problem_from_model(model):
    """
    Takes a snapshot of a Gurobi model as problem data.

    Parameters:
        model (gurobipy.Model): Linear (or mixed integer) model.
    Returns:
        ProblemData with the model's matrix, bounds, objective and integer
        columns, using GRB.INFINITY as infinity.
    """
    model.update()
    variables = model.getVars()
    constraints = model.getConstrs()

    A = model.getA().tocsr()
    col_lower = np.array(model.getAttr("LB", variables), dtype=float)
    col_upper = np.array(model.getAttr("UB", variables), dtype=float)
    obj = np.array(model.getAttr("Obj", variables), dtype=float)
    rhs = np.array(model.getAttr("RHS", constraints), dtype=float)
    row_sense = [SENSE_CODES[s] for s in model.getAttr("Sense", constraints)]
    vtypes = model.getAttr("VType", variables)

    row_lower, row_upper = row_bounds_from_sense(row_sense, rhs, GRB.INFINITY)

    return ProblemData(
        A, col_lower, col_upper, obj, row_lower, row_upper,
        infinity=GRB.INFINITY,
        integer_indices=[j for j, v in enumerate(vtypes) if v == GRB.INTEGER],
        binary_indices=[j for j, v in enumerate(vtypes) if v == GRB.BINARY],
        col_names=model.getAttr("VarName", variables),
        row_names=model.getAttr("ConstrName", constraints),
        row_sense=row_sense,
    )


def model_from_extensive_form(ext, name="ExtensiveForm"):
    """
    Loads an assembled deterministic equivalent into a Gurobi model.

    The model is built but not optimized.

    Parameters:
        ext (dict): Output of build_extensive_form.
        name (str): Model name.
    Returns:
        model (gurobipy.Model), x (list of gurobipy.Var)
    """
    A = ext['A_ext']
    infinity = ext['infinity']
    m, n = A.shape

    def bound(value):
        if value >= infinity:
            return GRB.INFINITY
        if value <= -infinity:
            return -GRB.INFINITY
        return float(value)

    model = gp.Model(name)
    model.setParam("OutputFlag", 0)

    integer = set(ext['integer_indices'])
    binary = set(ext['binary_indices'])
    x = []
    for j in range(n):
        if j in binary:
            vtype = GRB.BINARY
        elif j in integer:
            vtype = GRB.INTEGER
        else:
            vtype = GRB.CONTINUOUS
        x.append(model.addVar(lb=bound(ext['col_lower'][j]), ub=bound(ext['col_upper'][j]),
                              obj=ext['c_ext'][j], vtype=vtype, name=f"x{j}"))

    # Add constraints
    for i in range(m):
        start, end = A.indptr[i], A.indptr[i + 1]
        expr = gp.LinExpr(A.data[start:end].tolist(), [x[j] for j in A.indices[start:end]])
        lo = bound(ext['row_lower'][i])
        up = bound(ext['row_upper'][i])

        if lo == up:
            model.addConstr(expr == up, name=f"c{i}")
        elif lo == -GRB.INFINITY and up == GRB.INFINITY:
            continue  # free row
        elif lo == -GRB.INFINITY:
            model.addConstr(expr <= up, name=f"c{i}")
        elif up == GRB.INFINITY:
            model.addConstr(expr >= lo, name=f"c{i}")
        else:
            model.addRange(expr, lo, up, name=f"c{i}")

    model.ModelSense = GRB.MINIMIZE
    model.update()
    logger.info("Loaded model %s with %d variables and %d constraints", name, n, model.NumConstrs)
    return model, x
