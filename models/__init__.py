from .position import Position, PositionAnalysis, PositionSnapshot
