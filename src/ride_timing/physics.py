import math

G = 9.81  # m/s²
SEA_LEVEL_AIR_DENSITY = 1.225  # kg/m³ at 15 °C
STANDARD_TEMPERATURE_K = 288.15
CRR = 0.004  # road tires on pavement
CDA = 0.88 * 0.4  # drag coefficient * frontal area, m²
DRIVETRAIN_EFFICIENCY = 0.97

MIN_SPEED = 1.0  # m/s
MAX_SPEED = 25.0  # m/s
INITIAL_SPEED = 8.0  # m/s
POWER_TOLERANCE = 0.01  # watts
MAX_ITERATIONS = 20
DAMPING_FACTOR = 0.95

MAX_GRADE = 0.3


def air_density(temperature: float, humidity: float) -> float:
    """Air density adjusted for temperature (°C) and relative humidity (%).

    Scales the sea-level density inversely with absolute temperature and
    removes up to 2% for fully saturated air.
    """
    density = SEA_LEVEL_AIR_DENSITY * STANDARD_TEMPERATURE_K / (temperature + 273.15)
    return density * (1.0 - (humidity / 100.0) * 0.02)


def power_balance(speed: float, grade: float, headwind: float, density: float, total_mass: float) -> float:
    """Net pedal power (W) to hold `speed`; negative when gravity or a tailwind does the work.

    P = (P_roll + P_aero + P_climb) / efficiency, where
    P_roll = Crr*m*g*cos(theta)*v, P_aero = 0.5*CdA*rho*(v + headwind)^3 and
    P_climb = m*g*sin(theta)*v with theta = atan(grade).
    Headwind is positive when riding into the wind.
    """
    theta = math.atan(grade)
    rolling = CRR * total_mass * G * math.cos(theta) * speed
    aero = 0.5 * CDA * density * (speed + headwind) ** 3
    climbing = total_mass * G * math.sin(theta) * speed
    return (rolling + aero + climbing) / DRIVETRAIN_EFFICIENCY


def required_power(speed: float, grade: float, headwind: float, density: float, total_mass: float) -> float:
    """Pedal power (W) needed to hold `speed` on the given grade and wind. Never negative."""
    return max(0.0, power_balance(speed, grade, headwind, density, total_mass))


def power_speed_derivative(speed: float, grade: float, headwind: float, density: float, total_mass: float) -> float:
    """d(power_balance)/d(speed)."""
    theta = math.atan(grade)
    rolling = CRR * total_mass * G * math.cos(theta)
    aero = 1.5 * CDA * density * (speed + headwind) ** 2
    climbing = total_mass * G * math.sin(theta)
    return (rolling + aero + climbing) / DRIVETRAIN_EFFICIENCY


def solve_speed(
    target_power: float,
    grade: float,
    headwind: float,
    temperature: float,
    humidity: float,
    total_mass: float,
) -> float:
    """Solve for the speed (m/s) at which required power equals target power.

    Newton-Raphson on f(v) = power_balance(v) - target_power starting from
    8 m/s. Stops once |f| < 0.01 W or after 20 iterations. The balance is
    not floored at zero, so on a descent zero target power solves to the
    coasting speed.

    On steep descents the balance falls with speed until drag takes over.
    Below that turning point the slope is not positive: if the rider still
    has power to spare the root is faster, so the speed moves halfway to
    25 m/s; otherwise it is damped by 5%. The speed is clamped to [1, 25] m/s
    after every iteration, so the result is always a plausible riding speed
    even without convergence.
    """
    density = air_density(temperature, humidity)
    speed = INITIAL_SPEED

    for _ in range(MAX_ITERATIONS):
        diff = power_balance(speed, grade, headwind, density, total_mass) - target_power
        if abs(diff) < POWER_TOLERANCE:
            break

        slope = power_speed_derivative(speed, grade, headwind, density, total_mass)
        if slope > 0:
            speed = speed - diff / slope
        elif diff < 0:
            speed = (speed + MAX_SPEED) / 2
        else:
            speed = speed * DAMPING_FACTOR

        speed = max(MIN_SPEED, min(MAX_SPEED, speed))

    return speed


def headwind_component(wind_speed: float, wind_direction: float, bearing: float) -> float:
    """Project wind onto the direction of travel.

    wind_direction follows the meteorological convention (where the wind
    comes FROM), so a wind from the riding bearing is a full headwind.
    Positive = headwind, negative = tailwind.
    """
    return wind_speed * math.cos(math.radians(wind_direction - bearing))


def calculate_grade(start_elevation: float, end_elevation: float, horizontal_distance: float) -> float:
    """Elevation grade as a decimal, clamped to ±30%. Zero over no distance."""
    if horizontal_distance <= 0:
        return 0.0
    grade = (end_elevation - start_elevation) / horizontal_distance
    return max(-MAX_GRADE, min(MAX_GRADE, grade))
